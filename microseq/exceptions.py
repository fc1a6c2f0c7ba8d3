# microseq/exceptions.py

class ConfigurationError(Exception):
    """Imagem de microcódigo inválida (tamanho, largura) ou store mal utilizado."""
    pass
