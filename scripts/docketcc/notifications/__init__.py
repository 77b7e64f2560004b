"""
Notification queueing, content shaping and email delivery.
"""
