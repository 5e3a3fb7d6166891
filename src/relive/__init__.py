"""relive — cliente de transcricao ao vivo com retomada apos queda de conexao."""

__version__ = "0.1.0"
