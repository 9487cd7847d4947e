"""
Socket.IO chat server
"""
