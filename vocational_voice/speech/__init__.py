"""
Speech-to-text capture.
"""
