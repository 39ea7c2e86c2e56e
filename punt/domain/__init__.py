"""Domain layer - pure business rules"""
