"""
Web Indexer

A bounded web crawler with an in-memory keyword index and an interactive
query prompt.
"""

__version__ = "1.0.0"
__author__ = "Alex Nguyen"
__description__ = "A bounded concurrent web crawler answering keyword queries over the pages it indexes"
