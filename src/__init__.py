"""
Sales Dashboard Backend
"""
