from .settlement import EPSILON, Settlement


def format_currency(amount) -> str:
    return f"${(amount or 0):.2f}"


def format_net(net: float) -> str:
    if net >= EPSILON:
        return f"+{format_currency(net)}"
    if net <= -EPSILON:
        return f"-{format_currency(-net)}"
    return format_currency(0)


def build_share_text(snapshot, settlement: Settlement) -> str:
    """Plain-text summary of a settled round, suitable for sharing."""
    lines = [
        f"Poker game {snapshot.game_code} settled!",
        "",
        f"Total pot: {format_currency(snapshot.pot)}",
        f"Players: {len(snapshot.participants)}",
        "",
        "Results:",
    ]
    for result in settlement.results:
        lines.append(
            f"- {result.name}: {format_net(result.net)} "
            f"(In: {format_currency(result.invested)}, Out: {format_currency(result.wins)})"
        )
    lines.append("")
    if settlement.payments:
        lines.append("Settle up:")
        for payment in settlement.payments:
            lines.append(f"- {payment.payer} -> {payment.payee}: {format_currency(payment.amount)}")
    else:
        lines.append("Everyone broke even!")
    return "\n".join(lines)
