"""
Access control and credential freshness engine for Google Business Profile automation.
"""
