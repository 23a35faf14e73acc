"""
Test session backend client.
"""
