"""TOTP 認証コード管理機能"""
