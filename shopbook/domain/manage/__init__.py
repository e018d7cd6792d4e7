"""Manage domain - hashed per-booking tokens for customer self-service"""
