"""
app/lms package marker.
"""
