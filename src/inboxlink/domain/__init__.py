"""Domain layer: token, message and connection models"""
