"""Supabase-backed gateway, client factory and auth collaborator."""
