"""Tools for checking and fixing Re:VIEW manuscripts.

The agent tool lives in ``revguard.tools.review.tool`` and is imported
explicitly, so the engine can be used without the OpenHands SDK loaded.
"""
