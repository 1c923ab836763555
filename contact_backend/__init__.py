"""Backend del formulario de contacto y newsletter del sitio."""

__version__ = "0.1.0"
