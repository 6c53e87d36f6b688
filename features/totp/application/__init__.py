"""TOTP アプリケーション層"""
