"""
parameters.py - Parametri perturbabili del modello

Un parametro è un riferimento tipizzato a un campo numerico di un record:

    NodeProperty(node_id, NodeField.EMISSIVITY)
    ConductorProperty(conductor_id, ConductorField.CONDUCTANCE)
    HeatLoadProperty(load_id, HeatLoadField.VALUE)

I nomi dei campi sono enumerazioni: un nome non valido viene rifiutato alla
costruzione, non al momento dell'applicazione. apply() restituisce un nuovo
ThermalModel e non modifica mai quello di partenza.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Union

from .errors import ValidationError
from .model import ThermalModel, _coerce_enum


class _CamelCaseEnum(Enum):
    """Accetta anche la forma camelCase del valore (viewFactor → view_factor)"""

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            snake = "".join("_" + ch.lower() if ch.isupper() else ch for ch in value)
            for member in cls:
                if member.value == snake:
                    return member
        return None


class NodeField(_CamelCaseEnum):
    ABSORPTIVITY = "absorptivity"
    EMISSIVITY = "emissivity"
    AREA = "area"
    MASS = "mass"
    CAPACITANCE = "capacitance"
    TEMPERATURE = "temperature"


class ConductorField(_CamelCaseEnum):
    CONDUCTANCE = "conductance"
    VIEW_FACTOR = "view_factor"
    EMISSIVITY = "emissivity"


class HeatLoadField(_CamelCaseEnum):
    VALUE = "value"


@dataclass(frozen=True)
class NodeProperty:
    """Proprietà numerica di un nodo"""
    entity_id: str
    field: NodeField

    entity_type = "node"

    def __post_init__(self):
        object.__setattr__(self, "field", _coerce_enum(
            NodeField, self.field, "parameter", self.entity_id, "proprietà di nodo"))

    @property
    def key(self) -> str:
        return f"{self.entity_type}_{self.entity_id}_{self.field.value}"

    def get(self, model: ThermalModel) -> float:
        return _value_or_fail(getattr(model.node(self.entity_id), self.field.value), self)

    def apply(self, model: ThermalModel, value: float) -> ThermalModel:
        # La massa incide sulla capacità solo se questa deriva dal materiale
        return model.replace_node(self.entity_id, **{self.field.value: float(value)})


@dataclass(frozen=True)
class ConductorProperty:
    """Proprietà numerica di un conduttore"""
    entity_id: str
    field: ConductorField

    entity_type = "conductor"

    def __post_init__(self):
        object.__setattr__(self, "field", _coerce_enum(
            ConductorField, self.field, "parameter", self.entity_id, "proprietà di conduttore"))

    @property
    def key(self) -> str:
        return f"{self.entity_type}_{self.entity_id}_{self.field.value}"

    def get(self, model: ThermalModel) -> float:
        return _value_or_fail(getattr(model.conductor(self.entity_id), self.field.value), self)

    def apply(self, model: ThermalModel, value: float) -> ThermalModel:
        return model.replace_conductor(self.entity_id, **{self.field.value: float(value)})


@dataclass(frozen=True)
class HeatLoadProperty:
    """Proprietà numerica di un carico termico"""
    entity_id: str
    field: HeatLoadField = HeatLoadField.VALUE

    entity_type = "heat_load"

    def __post_init__(self):
        object.__setattr__(self, "field", _coerce_enum(
            HeatLoadField, self.field, "parameter", self.entity_id, "proprietà di carico"))

    @property
    def key(self) -> str:
        return f"{self.entity_type}_{self.entity_id}_{self.field.value}"

    def get(self, model: ThermalModel) -> float:
        return _value_or_fail(getattr(model.heat_load(self.entity_id), self.field.value), self)

    def apply(self, model: ThermalModel, value: float) -> ThermalModel:
        return model.replace_heat_load(self.entity_id, **{self.field.value: float(value)})


ParameterTarget = Union[NodeProperty, ConductorProperty, HeatLoadProperty]

_TARGETS = {
    "node": NodeProperty,
    "conductor": ConductorProperty,
    "heat_load": HeatLoadProperty,
}


def _value_or_fail(value, target) -> float:
    if value is None:
        raise ValidationError(f"'{target.field.value}' non definito", target.entity_type,
                              target.entity_id)
    return float(value)


def parameter_target(entity_type: str, entity_id: str, field: Any) -> ParameterTarget:
    """Crea il riferimento tipizzato da (tipo entità, id, nome del campo)"""
    if entity_type not in _TARGETS:
        raise ValidationError(f"tipo di entità non valido '{entity_type}'", "parameter", entity_id)
    return _TARGETS[entity_type](entity_id, field)


def parameter_from_dict(data: Dict[str, Any]) -> ParameterTarget:
    """Da {entityType, entityId, property} (o chiavi snake_case)"""
    return parameter_target(
        data.get("entity_type") or data.get("entityType"),
        data.get("entity_id") or data.get("entityId"),
        data.get("property") or data.get("field"),
    )
