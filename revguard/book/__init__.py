"""Re:VIEW book project support: catalog, toolchain runs, security and checks."""
