"""
carbonlog: carbon footprint estimates for free-text activity descriptions.
"""
