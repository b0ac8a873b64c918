"""
app/cache package marker.
"""
