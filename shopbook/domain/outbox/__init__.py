"""Outbox domain - durable notification queue, delivery sweep and reminders"""
