"""
ContractMock

Contract-driven mock API server: serves schema-conforming, stateful responses
for every endpoint of an OpenAPI contract.
"""

__version__ = '1.0.0'
