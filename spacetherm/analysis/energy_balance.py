"""
energy_balance.py - Verifica del bilancio energetico di una simulazione

=============================================================================
ENERGY BALANCE DIAGNOSTICS
=============================================================================

Per un run transitorio sull'intervallo [t0, t1]:

    E_in     = ∫ Σ_i Q_ext,i(t) dt            nodi non-boundary (carichi,
                                              incluso il flusso orbitale assorbito)
    E_out    = ∫ Σ_b Q_cond→b(t) dt           calore netto entrante nei boundary
    E_stored = Σ_i C_i · (T_i(t1) - T_i(t0))  nodi diffusion

Gli integrali sono calcolati con la regola dei trapezi sugli istanti
registrati dal solver (scipy.integrate.trapezoid).

    imbalance      = E_in - E_out - E_stored
    relative_error = |imbalance| / max(|E_in|, |E_out|, ε)
    is_balanced    = relative_error < threshold (default 1%)

Per un run stazionario (un solo istante) il bilancio è di potenza:
E_stored = 0 e i termini sono in [W].

Il bilancio è consultivo: un errore elevato segnala un passo troppo grande
o una tolleranza troppo lasca, non blocca il risultato.
=============================================================================
"""

from dataclasses import dataclass

import numpy as np
from scipy.integrate import trapezoid

from ..core.network import ThermalNetwork
from ..solver.heat_flow import heat_load_vector, net_conductor_heat
from ..solver.results import SimulationResult

EPSILON = 1e-10


@dataclass
class EnergyBalanceResult:
    """Risultato della verifica del bilancio energetico"""

    # Energie [J] (transitorio) o potenze [W] (stazionario)
    total_energy_in: float = 0.0        # Carichi esterni sui nodi liberi
    total_energy_out: float = 0.0       # Calore ceduto ai nodi boundary
    total_energy_stored: float = 0.0    # Variazione di energia interna

    imbalance: float = 0.0
    relative_error: float = 0.0         # [-]
    is_balanced: bool = True

    def summary(self) -> str:
        return (f"in = {self.total_energy_in:.4g}, out = {self.total_energy_out:.4g}, "
                f"stored = {self.total_energy_stored:.4g}, "
                f"errore = {100 * self.relative_error:.3f}%")


class EnergyBalanceAnalyzer:
    """
    Analizzatore del bilancio energetico di un SimulationResult.
    """

    def __init__(self, network: ThermalNetwork, threshold: float = 0.01):
        """
        Args:
            network: Rete termica usata per la simulazione
            threshold: Errore relativo massimo per considerare il bilancio chiuso
        """
        self.network = network
        self.threshold = threshold

    def analyze(self, result: SimulationResult) -> EnergyBalanceResult:
        """
        Calcola il bilancio energetico.

        Args:
            result: Risultato della simulazione (storia completa)

        Returns:
            EnergyBalanceResult (errore NaN e non bilanciato se il
            risultato non ha storia)
        """
        times = np.asarray(result.time_points, dtype=float)
        if times.size == 0:
            return EnergyBalanceResult(relative_error=float("nan"), is_balanced=False)

        network = self.network
        free = ~network.is_boundary
        boundary = network.boundary_idx

        power_in = np.array([heat_load_vector(network, t)[free].sum() for t in times])
        power_out = np.array([
            net_conductor_heat(network, T, flows)[boundary].sum()
            for T, flows in zip(result.temperatures, result.flows)
        ])

        if times.size == 1:
            energy_in = float(power_in[0])
            energy_out = float(power_out[0])
            stored = 0.0
        else:
            energy_in = float(trapezoid(power_in, times))
            energy_out = float(trapezoid(power_out, times))
            diff = network.diffusion_idx
            dT = result.temperatures[-1, diff] - result.temperatures[0, diff]
            stored = float(np.sum(network.capacitance[diff] * dT))

        imbalance = energy_in - energy_out - stored
        scale = max(abs(energy_in), abs(energy_out), EPSILON)
        relative_error = abs(imbalance) / scale

        return EnergyBalanceResult(
            total_energy_in=energy_in,
            total_energy_out=energy_out,
            total_energy_stored=stored,
            imbalance=imbalance,
            relative_error=relative_error,
            is_balanced=relative_error < self.threshold,
        )
