# Supabase table: notifications
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

notifications:
- id: uuid (primary key)
- user_id: uuid (foreign key to profiles.id, not null) - recipient
- title: text (not null)
- content: text (not null)
- type: text (not null) - values: info, success, warning, error, group_member, group_update, friend_request
- read: boolean (not null, default: false)
- metadata: jsonb (nullable) - tagged by "kind", see schemas.NotificationMetadata
- created_at: timestamp (default: now())

RLS: recipients may select/update/delete their own rows. Inserts for other
users go through the service_role client.
"""
