"""
mptnotify – push notifications for MPT timetable replacements.
"""
