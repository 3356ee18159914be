"""Realtime infrastructure (Socket.IO presence and room broadcast).

One socket server per process tracks who is connected, which project rooms
each connection listens to, and fans collaboration events out to them.
"""
