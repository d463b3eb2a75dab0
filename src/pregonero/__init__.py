"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/pregonero/__init__.py`.
Pregonero sigue una elección (nominación → primaria → elección → fin) leyendo
su página pública y anuncia cada cambio de fase en un canal de chat.

Componentes detectados:
  - (sin componentes de nivel de módulo / no top-level components)

======================== ENGLISH ========================
File: `src/pregonero/__init__.py`.
Pregonero tracks an election (nomination → primary → election → ended) by
reading its public page and announces every phase change into a chat channel.

Detected components:
  - (sin componentes de nivel de módulo / no top-level components)
"""

__version__ = "0.1.0"
