"""Business logic and calculation services"""
