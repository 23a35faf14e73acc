"""
Turn orchestration: announcement, classification and session progression.
"""
