from .chaos_delay import ChaosDelay as ChaosDelay
