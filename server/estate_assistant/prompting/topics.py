from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Tuple


@dataclass(frozen=True)
class Topic:
    id: str
    name: str
    description: str
    examples: Tuple[str, ...] = ()

    def prompt(self) -> str:
        return f"I have a question about {self.name}. Can you help me understand {self.description}?"


TOPICS: Tuple[Topic, ...] = (
    Topic(
        "buying-selling",
        "Buying & Selling",
        "Purchase agreements, closings, title issues",
        ("Purchase contracts", "Closing procedures", "Title problems", "Escrow issues"),
    ),
    Topic(
        "landlord-tenant",
        "Landlord-Tenant",
        "Rental agreements, evictions, security deposits",
        ("Lease agreements", "Eviction process", "Security deposits", "Tenant rights"),
    ),
    Topic(
        "property-disputes",
        "Property Disputes",
        "Boundary disputes, easements, neighbor issues",
        ("Boundary disputes", "Easement rights", "Neighbor conflicts", "Property damage"),
    ),
    Topic(
        "financing-mortgages",
        "Financing & Mortgages",
        "Loan terms, foreclosures, refinancing",
        ("Mortgage terms", "Foreclosure defense", "Refinancing", "Loan modifications"),
    ),
    Topic(
        "zoning-permits",
        "Zoning & Permits",
        "Building permits, zoning laws, development",
        ("Building permits", "Zoning violations", "Development rights", "Land use"),
    ),
    Topic(
        "property-management",
        "Property Management",
        "HOA issues, maintenance, property taxes",
        ("HOA disputes", "Property maintenance", "Tax assessments", "Insurance claims"),
    ),
)

TOPICS_BY_ID: Dict[str, Topic] = {t.id: t for t in TOPICS}
