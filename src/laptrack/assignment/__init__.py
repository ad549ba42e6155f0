"""Laptop Assignment Module.

This module tracks laptops and their distributions to people:
- Register and edit laptops
- Distribute a laptop to a holder and take it back
- Keep returned distributions as history
- Repair a laptop's cached assignment pointer when it drifts

Architecture: Clean Architecture with Hexagonal (Ports & Adapters)
"""
