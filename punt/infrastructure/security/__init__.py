"""Security helpers - sessions, passwords, TOTP"""
