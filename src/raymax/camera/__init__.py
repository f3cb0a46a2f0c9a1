"""Camera module.

Components:
    pinhole: Pinhole (perspective) camera with position/direction/up setup
"""
