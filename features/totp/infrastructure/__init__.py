"""TOTP インフラストラクチャ層"""
