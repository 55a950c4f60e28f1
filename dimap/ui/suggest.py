from dimap.core.session import COMMANDS_ALLOWED

COMMANDS = sorted(name.upper() for name in COMMANDS_ALLOWED)


def _levenstein(s1: str, s2: str) -> int:
    # fila previa de la matriz de distancias
    prev = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1, 1):
        cur = [i]
        for j, c2 in enumerate(s2, 1):
            insert = cur[j - 1] + 1
            deleted = prev[j] + 1
            change = prev[j - 1] + (c1 != c2)
            cur.append(min(insert, deleted, change))
        prev = cur
    return prev[-1]


def get_suggestion(cmd: str) -> str:
    dis = float('inf')
    suggestion = ""
    for command in COMMANDS:
        d = _levenstein(cmd.upper(), command)
        if d < dis:
            dis = d
            suggestion = command
    return suggestion if dis <= 3 else ""
