"""Booking domains"""
