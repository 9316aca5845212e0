#!/usr/bin/env python3

import asyncio
import sys
import os

sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from chathub.database import create_tables, AsyncSessionLocal
from chathub.exceptions import ChatError
from chathub.repositories.user_repository import UserRepository
from chathub.repositories.message_repository import MessageRepository
from chathub.services.friendship import FriendshipService

async def create_test_users():
    async with AsyncSessionLocal() as db:
        user_repo = UserRepository(db)
        
        users_data = [
            {"username": "alice", "email": "alice@example.com", "name": "Alice"},
            {"username": "bob", "email": "bob@example.com", "name": "Bob"},
            {"username": "charlie", "email": "charlie@example.com", "name": "Charlie"},
            {"username": "diana", "email": "diana@example.com", "name": "Diana"},
            {"username": "eve", "email": "eve@example.com", "name": "Eve"},
        ]
        
        created_users = []
        for user_data in users_data:
            existing_user = await user_repo.get_by_username(user_data["username"])
            if not existing_user:
                user = await user_repo.create(**user_data)
                created_users.append(user)
                print(f"Created user: {user.username} (ID: {user.id})")
            else:
                created_users.append(existing_user)
                print(f"User {user_data['username']} exists (ID: {existing_user.id})")
        
        return created_users

async def create_test_friendships():
    async with AsyncSessionLocal() as db:
        service = FriendshipService(db)
        
        pairs = [("alice", "bob"), ("alice", "charlie"), ("charlie", "diana")]
        for from_user, to_user in pairs:
            try:
                request = await service.send_request(from_user, to_user)
                await service.respond_to_request(request.id, "accepted")
                print(f"{from_user} and {to_user} are now friends")
            except ChatError as e:
                print(f"Skipped {from_user} -> {to_user}: {e.message}")
        
        # один запрос оставляем висеть, чтобы было что принять из клиента
        try:
            await service.send_request("eve", "alice")
            print("Pending friend request: eve -> alice")
        except ChatError as e:
            print(f"Skipped eve -> alice: {e.message}")

async def create_test_messages():
    async with AsyncSessionLocal() as db:
        message_repo = MessageRepository(db)
        
        messages_data = [
            ("alice", "general", "Hey everyone! How's it going?"),
            ("bob", "general", "Hi Alice! All good, thanks!"),
            ("alice", "general", "Great! Ready to work on the project?"),
            ("charlie", "project", "Welcome to the project room!"),
            ("diana", "project", "Let's discuss the work plan"),
            ("charlie", "project", "Great idea! Let's start with defining tasks"),
        ]
        
        created_messages = []
        for username, room, text in messages_data:
            message = await message_repo.create(username, room, text)
            created_messages.append(message)
            print(f"Created message from {username} in {room}: '{text[:30]}...'")
        
        return created_messages

async def main():
    print("Creating test data for ChatHub...\n")
    
    try:
        print("1. Creating database tables...")
        await create_tables()
        print("Tables created\n")
        
        print("2. Creating test users...")
        users = await create_test_users()
        print(f"Created/found {len(users)} users\n")
        
        print("3. Creating friendships...")
        await create_test_friendships()
        print()
        
        print("4. Creating test messages...")
        messages = await create_test_messages()
        print(f"Created {len(messages)} messages\n")
        
        print("Test data created successfully!")
        print("\nUsers:")
        for user in users:
            print(f"  - {user.username} (ID: {user.id})")
        
        print("\nUseful links:")
        print("  - API docs: http://localhost:8000/docs")
        print("  - Room history: http://localhost:8000/api/v1/messages/history/general")
        print("  - WebSocket: ws://localhost:8000/api/v1/ws/chat?username=alice")
        
    except Exception as e:
        print(f"Error creating test data: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)

if __name__ == "__main__":
    asyncio.run(main())
