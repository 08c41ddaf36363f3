# Services package init
"""
Expense Tracker API — Services Layer
======================================

What:  Business logic between the routes (HTTP) and MongoDB.
How:   Services receive the database handle per call and raise application
       exceptions; routes stay thin and translate nothing themselves.

Service Inventory:
    - UserService: Registration, login and profile lookup
"""
