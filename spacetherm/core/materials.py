"""
materials.py - Database materiali per veicoli spaziali

Fornisce:
- Proprietà termiche e ottiche dei materiali più comuni a bordo
- Capacità termica di un nodo a partire da massa e materiale
- Proprietà ottiche di default (α, ε) per nodi senza valori espliciti
"""

from dataclasses import dataclass
from typing import Dict, Optional
from enum import Enum


class MaterialType(Enum):
    """Categorie di materiali"""
    STRUCTURAL = "structural"
    ELECTRONICS = "electronics"
    INSULATION = "insulation"
    COATING = "coating"


@dataclass(frozen=True)
class ThermalProperties:
    """
    Proprietà termo-ottiche di un materiale.

    I valori ottici si riferiscono alla finitura superficiale tipica.
    """
    name: str
    cp: float                   # Calore specifico [J/(kg·K)]
    absorptivity: float = 0.5   # Assorbività solare α [-]
    emissivity: float = 0.5     # Emissività IR ε [-]

    def heat_capacity(self, mass: float) -> float:
        """Capacità termica [J/K] di una massa [kg] di questo materiale"""
        return mass * self.cp


# =============================================================================
# DATABASE MATERIALI
# =============================================================================

STRUCTURAL_MATERIALS: Dict[str, ThermalProperties] = {
    "aluminum_6061": ThermalProperties(
        name="Alluminio 6061-T6",
        cp=896,
        absorptivity=0.15, emissivity=0.05,
    ),
    "aluminum_7075": ThermalProperties(
        name="Alluminio 7075-T6",
        cp=960,
        absorptivity=0.15, emissivity=0.05,
    ),
    "titanium_6al4v": ThermalProperties(
        name="Titanio Ti-6Al-4V",
        cp=526,
        absorptivity=0.52, emissivity=0.12,
    ),
    "copper": ThermalProperties(
        name="Rame OFHC",
        cp=385,
        absorptivity=0.32, emissivity=0.03,
    ),
    "cfrp": ThermalProperties(
        name="Composito in fibra di carbonio",
        cp=900,
        absorptivity=0.92, emissivity=0.85,
    ),
}

ELECTRONICS_MATERIALS: Dict[str, ThermalProperties] = {
    "fr4": ThermalProperties(
        name="FR-4 (circuito stampato)",
        cp=1100,
        absorptivity=0.8, emissivity=0.9,
    ),
    "li_ion_cell": ThermalProperties(
        name="Cella Li-ion",
        cp=1000,
        absorptivity=0.6, emissivity=0.8,
    ),
    "silicon_solar_cell": ThermalProperties(
        name="Cella solare al silicio",
        cp=700,
        absorptivity=0.92, emissivity=0.85,
    ),
}

INSULATION_MATERIALS: Dict[str, ThermalProperties] = {
    "mli_blanket": ThermalProperties(
        name="Coperta MLI",
        cp=1000,
        absorptivity=0.14, emissivity=0.03,
    ),
    "kapton": ThermalProperties(
        name="Kapton",
        cp=1090,
        absorptivity=0.40, emissivity=0.62,
    ),
}

COATING_MATERIALS: Dict[str, ThermalProperties] = {
    "white_paint": ThermalProperties(
        name="Vernice bianca",
        cp=1000,
        absorptivity=0.20, emissivity=0.88,
    ),
    "black_paint": ThermalProperties(
        name="Vernice nera",
        cp=1000,
        absorptivity=0.95, emissivity=0.88,
    ),
    "osr": ThermalProperties(
        name="Optical Solar Reflector",
        cp=750,
        absorptivity=0.08, emissivity=0.80,
    ),
}


# =============================================================================
# CLASSE MATERIAL MANAGER
# =============================================================================

class MaterialManager:
    """
    Gestore centrale per i materiali del modello.

    Permette di:
    - Accedere alle proprietà dei materiali
    - Ricavare la capacità termica dei nodi
    - Gestire materiali custom
    """

    def __init__(self):
        self.materials: Dict[str, ThermalProperties] = {}
        self.materials.update(STRUCTURAL_MATERIALS)
        self.materials.update(ELECTRONICS_MATERIALS)
        self.materials.update(INSULATION_MATERIALS)
        self.materials.update(COATING_MATERIALS)

    def __contains__(self, name: str) -> bool:
        return name in self.materials

    def get(self, name: str) -> ThermalProperties:
        """Restituisce le proprietà di un materiale"""
        if name not in self.materials:
            raise KeyError(f"Materiale non trovato: {name}")
        return self.materials[name]

    def list_materials(self, category: Optional[MaterialType] = None) -> list:
        """Lista i materiali disponibili"""
        if category == MaterialType.STRUCTURAL:
            return list(STRUCTURAL_MATERIALS.keys())
        elif category == MaterialType.ELECTRONICS:
            return list(ELECTRONICS_MATERIALS.keys())
        elif category == MaterialType.INSULATION:
            return list(INSULATION_MATERIALS.keys())
        elif category == MaterialType.COATING:
            return list(COATING_MATERIALS.keys())
        else:
            return list(self.materials.keys())

    def add_custom_material(self, key: str, props: ThermalProperties):
        """Aggiunge un materiale custom al database"""
        self.materials[key] = props

    def node_capacitance(self, material_id: str, mass: float) -> float:
        """Capacità termica [J/K] di un nodo di massa data"""
        return self.get(material_id).heat_capacity(mass)


if __name__ == "__main__":
    manager = MaterialManager()
    for category in MaterialType:
        print(f"=== {category.value} ===")
        for name in manager.list_materials(category):
            props = manager.get(name)
            print(f"  {props.name}: cp = {props.cp:.0f} J/(kg·K), "
                  f"α = {props.absorptivity:.2f}, ε = {props.emissivity:.2f}")
