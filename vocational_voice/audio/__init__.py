"""
Microphone level sampling.
"""
