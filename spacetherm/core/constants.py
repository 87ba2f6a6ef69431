"""
constants.py - Costanti fisiche e ambientali

Valori usati da modelli dei conduttori, ambiente orbitale e ray tracer.
"""

# Radiazione
STEFAN_BOLTZMANN = 5.670374419e-8   # [W/(m²·K⁴)]

# Ambiente orbitale terrestre
SOLAR_CONSTANT = 1361.0             # Flusso solare a 1 AU [W/m²]
EARTH_ALBEDO = 0.3                  # Albedo medio terrestre [-]
EARTH_IR = 237.0                    # Emissione IR terrestre [W/m²]
EARTH_RADIUS_KM = 6371.0            # Raggio medio terrestre [km]
EARTH_MU = 3.986004418e14           # Parametro gravitazionale [m³/s²]

# Limiti di validità dell'orbita
MIN_ALTITUDE_KM = 160.0
MAX_ALTITUDE_KM = 50000.0

# Default ottici dei nodi
DEFAULT_ABSORPTIVITY = 0.5
DEFAULT_EMISSIVITY = 0.5

# Tempo
SECONDS_PER_DAY = 86400.0
DAYS_PER_YEAR = 365.25
