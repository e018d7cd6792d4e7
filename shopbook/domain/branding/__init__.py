"""Branding domain - industry presets and allow-listed shop overrides"""
