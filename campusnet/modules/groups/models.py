# Supabase tables: groups, group_members
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

groups:
- id: uuid (primary key)
- name: text (not null)
- description: text (not null, default: '')
- image_url: text (nullable)
- created_by: uuid (foreign key to profiles.id, not null) - founding admin
- max_members: integer (not null, default: 120)
- settings: jsonb (not null) - allow_member_invites, allow_message_deletion, allow_member_visibility
- secondary_admins: uuid[] (not null, default: '{}')
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

group_members:
- id: uuid (primary key)
- group_id: uuid (foreign key to groups.id, not null, on delete cascade)
- user_id: uuid (foreign key to profiles.id, not null)
- role: text (not null, default: 'member') - values: admin, secondary_admin, member
- created_at: timestamp (default: now())
- unique constraint on (group_id, user_id)
"""
