"""Core utilities: configuration, errors, logging, codecs and cookie security"""
