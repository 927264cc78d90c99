"""
Assistant — Núcleo conversacional de Habitar Propiedades.

Convierte cada mensaje de WhatsApp en una respuesta del agente:
- Estado de conversación (BOT / HUMAN, invitado / vinculado)
- Historial reciente como contexto del modelo
- Loop de function calling sobre las herramientas del Core Backend
- Verificación de identidad por DNI/CUIT + código OTP
"""
