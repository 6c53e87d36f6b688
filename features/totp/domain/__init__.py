"""TOTP ドメイン層"""
