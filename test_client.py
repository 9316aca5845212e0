#!/usr/bin/env python3

import asyncio
import websockets
import json
import requests

BASE_URL = "http://localhost:8000"
WS_URL = "ws://localhost:8000/api/v1/ws/chat"

async def test_websocket(username="alice", room="general"):
    response = requests.get(f"{BASE_URL}/api/v1/messages/history/{room}", params={"limit": 5})
    
    if response.status_code != 200:
        print("Server is not responding")
        return
        
    print(f"Room {room} has {response.json()['count']} recent messages")
    
    uri = f"{WS_URL}?username={username}"
    
    async with websockets.connect(uri) as websocket:
        print("Connected to WebSocket")
        
        await websocket.send(json.dumps({
            "action": "joinRoom",
            "data": {"username": username, "room": room}
        }))
        
        message = {
            "action": "chatMessage",
            "data": {
                "username": username,
                "room": room,
                "text": "Test message from Python client"
            }
        }
        
        await websocket.send(json.dumps(message))
        await websocket.send(json.dumps({"action": "getPendingRequests", "data": {}}))
        print("Message sent")
        
        try:
            while True:
                response = await asyncio.wait_for(websocket.recv(), timeout=5.0)
                data = json.loads(response)
                print(f"Received {data['type']}: {data['data']}")
        except asyncio.TimeoutError:
            print("No more messages")

if __name__ == "__main__":
    asyncio.run(test_websocket())
