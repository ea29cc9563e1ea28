"""
Business logic for monetized short links.

Link creation and lookup, the view rate limiter, interstitial credentials,
view recording and earnings all live here, independent of the HTTP layer.
"""
