# Supabase tables: group_messages, chat_rooms, chat_participants, messages
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

group_messages:
- id: uuid (primary key)
- group_id: uuid (foreign key to groups.id, not null, on delete cascade)
- sender_id: uuid (foreign key to profiles.id, not null)
- content: text (not null, default: '')
- image_url: text (nullable)
- created_at: timestamp (default: now())

chat_rooms:
- id: uuid (primary key)
- created_at: timestamp (default: now())

chat_participants:
- id: uuid (primary key)
- chat_room_id: uuid (foreign key to chat_rooms.id, not null)
- user_id: uuid (foreign key to profiles.id, not null)
- created_at: timestamp (default: now())
- unique constraint on (chat_room_id, user_id)

messages:
- id: uuid (primary key)
- chat_room_id: uuid (foreign key to chat_rooms.id, not null)
- sender_id: uuid (foreign key to profiles.id, not null)
- content: text (not null, default: '')
- image_url: text (nullable)
- created_at: timestamp (default: now())
"""
