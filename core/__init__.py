"""
Core Package

Contains the provider-agnostic core logic including:
- Settings and logging shared by every module
- PriceProvider: Abstract base class for price sources
- ProviderManager: Registry of price providers by name
- Schemas: Pydantic models for every wire record (stream frames, REST bodies)
"""
