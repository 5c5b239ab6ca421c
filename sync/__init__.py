"""Realtime synchronization between the remote gateway and the store."""
