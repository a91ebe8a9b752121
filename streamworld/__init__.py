"""
StreamWorld — application lifecycle core for the Web3 streaming service.

Boots the service's subsystems in order, tracks aggregate health, and runs
resource-bounded background automation.
"""

__version__ = "0.1.0"
