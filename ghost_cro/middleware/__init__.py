"""Request middleware"""
