"""Colaboradores de rede: negociacao HTTP, transporte WebSocket e mensagens."""
