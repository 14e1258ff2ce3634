"""Cost roll-up for current vs recommended sizing.

Hourly cost is the only computed figure; daily (x24) and monthly (x730)
are always derived from it.
"""
import logging

from models import CostLine, CostBreakdown, CostAnalysis

logger = logging.getLogger(__name__)

HOURS_PER_DAY = 24
HOURS_PER_MONTH = 730
MILLICORES_PER_CORE = 1000.0
MEBIBYTES_PER_GB = 1024.0


def _breakdown(cpu_millicores: float, memory_mebibytes: float, prices, exchange_rate: float) -> CostBreakdown:
    cores = cpu_millicores / MILLICORES_PER_CORE
    gigabytes = memory_mebibytes / MEBIBYTES_PER_GB
    cpu_hourly = cores * prices.cpu_per_core_hour * exchange_rate
    memory_hourly = gigabytes * prices.memory_per_gb_hour * exchange_rate
    hourly = CostLine(cpu=cpu_hourly, memory=memory_hourly, total=cpu_hourly + memory_hourly)
    return CostBreakdown(
        hourly=hourly,
        daily=hourly.scaled(HOURS_PER_DAY),
        monthly=hourly.scaled(HOURS_PER_MONTH),
    )


def calculate_costs(
    current_cpu_m: float,
    current_mem_mi: float,
    recommended_cpu_m: float,
    recommended_mem_mi: float,
    prices,
    exchange_rate: float = 1.0,
    currency: str = 'USD'
) -> CostAnalysis:
    """Compare the cost of the current and recommended requests

    Args:
        current_cpu_m / recommended_cpu_m: CPU in millicores
        current_mem_mi / recommended_mem_mi: memory in MiB
        prices: object with cpu_per_core_hour and memory_per_gb_hour (base currency)
        exchange_rate: base currency -> `currency`
        currency: currency code reported with the figures

    Raises:
        ValueError: on negative prices, quantities or exchange rate
    """
    if exchange_rate < 0:
        raise ValueError(f"exchange rate must not be negative, got {exchange_rate}")
    if prices.cpu_per_core_hour < 0 or prices.memory_per_gb_hour < 0:
        raise ValueError("prices must not be negative")
    for name, value in (('current_cpu_m', current_cpu_m), ('current_mem_mi', current_mem_mi),
                        ('recommended_cpu_m', recommended_cpu_m), ('recommended_mem_mi', recommended_mem_mi)):
        if value < 0:
            raise ValueError(f"{name} must not be negative, got {value}")

    current = _breakdown(current_cpu_m, current_mem_mi, prices, exchange_rate)
    recommended = _breakdown(recommended_cpu_m, recommended_mem_mi, prices, exchange_rate)

    savings = CostLine(
        cpu=current.monthly.cpu - recommended.monthly.cpu,
        memory=current.monthly.memory - recommended.monthly.memory,
        total=current.monthly.total - recommended.monthly.total,
    )
    savings_percent = 0.0
    if current.monthly.total > 0:
        savings_percent = savings.total / current.monthly.total * 100.0

    return CostAnalysis(
        current=current,
        recommended=recommended,
        savings=savings,
        savings_percent=savings_percent,
        currency=currency,
        exchange_rate=exchange_rate,
    )
