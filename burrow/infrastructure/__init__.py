"""
Infrastructure layer: SSH transport, configuration and logging.
"""
