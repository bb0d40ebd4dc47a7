"""conduit command line interface"""
