"""Session row persistence"""
