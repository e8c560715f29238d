# Supabase table: group_join_requests
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

group_join_requests:
- id: uuid (primary key)
- group_id: uuid (not null) - weak reference to groups.id
- user_id: uuid (foreign key to profiles.id, not null) - requester
- status: text (not null, default: 'pending') - values: pending, approved, rejected
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)
- partial unique index on (group_id, user_id) where status = 'pending'
"""
