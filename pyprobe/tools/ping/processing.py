import json
import os

from tabulate import tabulate

from pyprobe.probe import Packet, Statistics


def format_duration(seconds: float) -> str:
    """Длительность в удобных единицах: 850ns, 12.5µs, 23.481ms, 1.204s."""
    ns = seconds * 1e9
    if abs(ns) < 1e3:
        return f"{ns:.0f}ns"
    if abs(ns) < 1e6:
        return f"{ns / 1e3:.3f}µs"
    if abs(ns) < 1e9:
        return f"{ns / 1e6:.3f}ms"
    return f"{seconds:.3f}s"


def format_reply(pkt: Packet) -> str:
    return (f"{pkt.nbytes} bytes from {pkt.ip_addr}: icmp_seq={pkt.seq} "
            f"time={format_duration(pkt.rtt)}")


def format_summary(host: str, stats: Statistics) -> str:
    """
    Итоговый блок в стиле ping: счетчики пакетов и потери, затем
    таблица min/avg/max/stddev.
    """
    lines = [
        f"\n--- {host} ping statistics ---",
        f"{stats.packets_sent} packets transmitted, "
        f"{stats.packets_recv} packets received, "
        f"{stats.packet_loss:g}% packet loss",
    ]
    if stats.packets_recv > 0:
        lines.append("round-trip:")
        lines.append(tabulate(
            [[format_duration(stats.min_rtt),
              format_duration(stats.avg_rtt),
              format_duration(stats.max_rtt),
              format_duration(stats.std_dev_rtt)]],
            headers=["min", "avg", "max", "stddev"],
            tablefmt="pretty"
        ))
    return "\n".join(lines)


def save_results_to_file(file_name, initial_data, stats: Statistics):
    """Сохранить входные параметры и итоговую статистику в JSON."""
    d = os.path.dirname(file_name)
    if d:
        os.makedirs(d, exist_ok=True)
    with open(file_name, "w") as f:
        json.dump({
            "params": initial_data,
            "statistics": stats.model_dump(),
        }, f, indent=2)
