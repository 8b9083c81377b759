CONDITION_GRAMMAR = r"""
    start: condition ("AND" condition)*

    condition: FIELD COMPARE SIGNED_NUMBER

    FIELD: /[A-Za-z_][A-Za-z0-9_]*/

    COMPARE: ">=" | "<=" | "==" | "!=" | ">" | "<"

    %import common.SIGNED_NUMBER
    %import common.WS
    %ignore WS
"""
