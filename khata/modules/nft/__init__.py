# Achievement NFT module
