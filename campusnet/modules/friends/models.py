# Supabase tables: friend_requests, friends
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

friend_requests:
- id: uuid (primary key)
- sender_id: uuid (foreign key to profiles.id, not null)
- receiver_id: uuid (foreign key to profiles.id, not null)
- status: text (not null, default: 'pending') - values: pending, accepted, rejected
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

friends:
- id: uuid (primary key)
- user_id1: uuid (foreign key to profiles.id, not null)
- user_id2: uuid (foreign key to profiles.id, not null)
- created_at: timestamp (default: now())
- one row per unordered pair
"""
