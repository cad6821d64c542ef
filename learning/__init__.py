"""Phased learning core: progress model, mastery rules, phase transitions and session lifecycle."""
