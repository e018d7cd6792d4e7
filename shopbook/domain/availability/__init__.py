"""Availability domain - slot computation for one staff member or any staff"""
