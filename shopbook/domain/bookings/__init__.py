"""Booking domain - create, walk-in, reschedule, cancel and block operations"""
