"""
Mirror — Clone-or-sync lifecycle, tree diffs and observer notification.
"""
