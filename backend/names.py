"""
Company and product name generation.

Names are prefix+suffix draws that must not collide with the caller's
used-name set; the chosen name is added to that set.
"""

import random
from typing import List, Optional, Set

COMPANY_PREFIXES: List[str] = [
    "Neuro", "Quantum", "Cyber", "Hyper", "Vertex", "Nexus", "Strato", "Omicron", "Zenith", "Titan",
    "Echo", "Horizon", "Aether", "Aurora", "Byte", "Nano", "Synth", "Vortex", "Lyric", "Sigma",
    "Meta", "Flux", "Pyro", "Velox", "Inferna", "Nova", "Zylo", "Sol", "Sky", "Celesti",
    "Arc", "Phantom", "Neon", "Axion", "Sentinel", "Helix", "Apollo", "Echelon", "Omni", "Synthetix",
]
COMPANY_SUFFIXES: List[str] = [
    "Tech", "AI", "Soft", "Dynamics", "Labs", "Innovations", "Industries", "Solutions", "Cloud",
    "Systems", "Logic", "Cybernetics", "Synapse", "Robotics", "Intelligence", "Analytics", "Works",
    "Data", "Quantum", "Networks", "Ventures", "Enterprises", "Informatics", "Computation", "Ops",
    "Matrix", "Forge", "Frameworks", "Infotech", "Synergy", "Engage", "X", "Next", "Core",
    "Stream", "Node", "Sphere", "Hub",
]
PRODUCT_PREFIXES: List[str] = [
    "Sky", "Neo", "Prime", "Nova", "Aero", "Delta", "Zeta", "Omega", "Quantum", "Hyper",
    "Green", "Cyber", "Mono", "Alpha", "Aqua",
]
PRODUCT_SUFFIXES: List[str] = [
    "Flow", "Boost", "Hub", "Core", "Link", "Edge", "Sphere", "Guard", "Gate", "Layer",
    "Matrix", "Flash", "Pulse", "Logic", "Sense",
]


class NameGenerator:
    """Random, collision-free names drawn from a shared random source."""

    def __init__(self, rng: Optional[random.Random] = None, max_attempts: int = 500):
        self.rng = rng or random.Random()
        self.max_attempts = max_attempts

    def company_name(self, used: Set[str]) -> str:
        return self._generate(COMPANY_PREFIXES, COMPANY_SUFFIXES, used)

    def product_name(self, used: Set[str]) -> str:
        return self._generate(PRODUCT_PREFIXES, PRODUCT_SUFFIXES, used)

    def _generate(self, prefixes: List[str], suffixes: List[str], used: Set[str]) -> str:
        for _ in range(self.max_attempts):
            name = f"{self.rng.choice(prefixes)}{self.rng.choice(suffixes)}"
            if name not in used:
                used.add(name)
                return name

        # Pool is (nearly) exhausted: fall back to numbered variants
        base = f"{self.rng.choice(prefixes)}{self.rng.choice(suffixes)}"
        counter = 2
        while f"{base} {counter}" in used:
            counter += 1
        name = f"{base} {counter}"
        used.add(name)
        return name
