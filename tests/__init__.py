"""
Therapy Scheduler Test Suite
"""
