"""Sessao de streaming retomavel: buffer pendente, maquina de estados e reconexao."""
